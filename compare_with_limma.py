import pandas as pd
import numpy as np

# ---- Load data ----
py = pd.read_csv("data/limma_results.csv", index_col="gene_id")
r = pd.read_csv("data/limma_results_r.csv", index_col=0)

# Keep and rename R limma topTable columns
r = r[["AveExpr", "logFC", "t", "P.Value", "adj.P.Val"]].rename(columns={
    "AveExpr": "ave_expr_r",
    "logFC": "log_fold_change_r",
    "t": "t_statistic_r",
    "P.Value": "raw_p_value_r",
    "adj.P.Val": "adjusted_p_value_r",
})

# Rename Python columns
py = py[["ave_expr", "log_fold_change", "t_statistic", "raw_p_value", "adjusted_p_value"]].rename(
    columns=lambda c: f"{c}_py")

# Merge on gene ID
merged = py.join(r, how="inner").dropna(subset=["log_fold_change_py", "log_fold_change_r"])


def summarize(df: pd.DataFrame, label: str):
    print(f"\n=== {label} ===")
    if df.empty:
        print("No genes in this subset.")
        return

    n_genes = df.shape[0]
    print("Number of genes:", n_genes)

    # 1) Agreement of estimates
    for col in ["log_fold_change", "t_statistic"]:
        corr = df[f"{col}_py"].corr(df[f"{col}_r"])
        max_diff = np.max(np.abs(df[f"{col}_py"] - df[f"{col}_r"]))
        print(f"{col}: correlation={corr:.6f}, max abs difference={max_diff:.3g}")

    log_p_py = -np.log10(df["raw_p_value_py"].clip(lower=1e-300))
    log_p_r = -np.log10(df["raw_p_value_r"].clip(lower=1e-300))
    print("-log10 p-value correlation:", log_p_py.corr(log_p_r))

    # 2) Top-N overlap for multiple N
    for N in [20, 50, 100]:
        top_py = set(df.sort_values("raw_p_value_py").head(N).index)
        top_r = set(df.sort_values("raw_p_value_r").head(N).index)
        overlap = len(top_py & top_r)
        print(f"Top {N} overlap: {overlap} / {N}")

    # 3) Significant genes counts
    sig_py = (df["adjusted_p_value_py"] < 0.05).sum()
    sig_r = (df["adjusted_p_value_r"] < 0.05).sum()
    print(f"Significant genes (adj.P < 0.05): Python={sig_py}, limma={sig_r}")


# 1) All genes
summarize(merged, "All genes")

# 2) Highly expressed genes only
high = merged[merged["ave_expr_r"] > merged["ave_expr_r"].median()]
summarize(high, "Above-median expression genes")

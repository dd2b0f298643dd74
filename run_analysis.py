import os
import time

import pandas as pd
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from limma_py import (
    LimmaConfig,
    align_samples,
    derive_condition_labels,
    maybe_log2_transform,
    plotHeatmap,
    plotVolcano,
    run_limma,
    summary,
)

# GSE10072: lung adenocarcinoma vs normal lung tissue
EXPRESSION_CSV = "data/expression.csv"
METADATA_CSV = "data/metadata.csv"
RESULTS_CSV = "data/limma_results.csv"
CONDITION_COLUMN = "source_name_ch1"
EFFECT_VALUE = "Adenocarcinoma of the Lung"

os.makedirs("plots", exist_ok=True)


def load_data():
    print(f"Loading {EXPRESSION_CSV}...")
    expression_df = pd.read_csv(EXPRESSION_CSV, index_col=0)
    print(f"Loading {METADATA_CSV}...")
    metadata_df = pd.read_csv(METADATA_CSV, index_col=0)
    return expression_df, metadata_df


def main():
    expression_df, metadata_df = load_data()
    config = LimmaConfig(reference_level="normal", effect_level="cancer")

    print("Preparing metadata...")
    condition = derive_condition_labels(
        metadata_df, column=CONDITION_COLUMN, effect_value=EFFECT_VALUE,
        effect_level=config.effect_level, reference_level=config.reference_level,
        quiet=False)
    expression_df = align_samples(expression_df, metadata_df)
    expression_df, _ = maybe_log2_transform(expression_df, quiet=False)

    print(f"Running limma on {expression_df.shape[0]} genes...")
    start_time = time.time()

    res = run_limma(expression_df, condition, config=config, quiet=False)

    print(f"Done in {time.time() - start_time:.1f} seconds.")

    print(f"Saving results to {RESULTS_CSV}...")
    res.table.to_csv(RESULTS_CSV, index=False)
    summary(res.table, alpha=0.05, excluded=res.excluded)

    plotVolcano(res.table, alpha=0.05)
    plt.savefig("plots/volcano_plot_limma.png", dpi=300)
    plt.close()
    print("  Saved: plots/volcano_plot_limma.png")

    fig, _ = plotHeatmap(expression_df, res.table, condition=condition, n_top=50)
    fig.savefig("plots/heatmap_limma.png", dpi=300)
    plt.close(fig)
    print("  Saved: plots/heatmap_limma.png")

    print("Analysis complete!")


if __name__ == "__main__":
    main()

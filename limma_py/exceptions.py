"""
Error types raised by the limma_py pipeline.

Each stage raises the error matching the first violated precondition it
observes. Input problems subclass ``ValueError`` so callers that already
catch ``ValueError`` keep working; numerical failures subclass
``ArithmeticError``.
"""


class LimmaError(Exception):
    """Base class for all limma_py errors."""


class ConfigurationError(LimmaError, ValueError):
    """Bad or ambiguous group labelling, design or analysis settings."""


class EmptyInputError(LimmaError, ValueError):
    """Zero genes, zero samples or zero p-values were supplied."""


class RankDeficiencyError(LimmaError, ValueError):
    """The regression leaves no residual degrees of freedom."""


class NumericalInstabilityError(LimmaError, ArithmeticError):
    """Singular design or non-finite values produced during fitting."""

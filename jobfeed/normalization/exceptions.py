"""Normalization exceptions."""


class NormalizationError(Exception):
    """Raised when normalization receives input it cannot handle.

    Normalization is total over strings, so this only fires on a programming
    defect (e.g. a non-string reaching the normalizer). The sync pipeline
    treats it as fatal for the whole run rather than skipping one employer.
    """

    pass

"""BiasBrief: news feed with biased and unbiased headline variants."""

__version__ = "0.1.0"

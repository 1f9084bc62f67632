"""HTTP relay that resolves media URLs and streams the downloaded file back."""

__version__ = "1.0.0"

"""Mirror ranked Quaver mapsets into MySQL and local disk or S3."""

__version__ = "0.1.0"

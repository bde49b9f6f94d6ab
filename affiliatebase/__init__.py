"""AffiliateBase: ranked directory of affiliate programs."""

__version__ = "0.1.0"

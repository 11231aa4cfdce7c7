"""MedPath: hospital route finder and emergency referral workflow."""

__version__ = "0.1.0"

"""TailorEDU service layer.

Serverless-style HTTP functions for the TailorEDU platform:
assignment personalization, AI submission analysis and weekly class digests.
"""

__version__ = "0.1.0"

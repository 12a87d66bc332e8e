"""
                Food Ordering Engine

Order placement and fulfilment backend for an online food store:
admission control, stock reservation, promo-code redemption and a
scheduled-delivery lifecycle on top of FastAPI, SQLAlchemy and Celery.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"

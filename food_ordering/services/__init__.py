"""
                        Services Module

Business logic of the ordering engine. Services take an AsyncSession and
never import FastAPI; errors are raised from core.exceptions.

Services:
    - admission: global order limit
    - inventory: atomic stock reservation
    - promo_codes: promo code validation and redemption
    - orders: placement workflow and order lifecycle
    - queries: eager-loaded order reads
    - scheduling: delivery slots and the scheduled-delivery sweep
    - notifications: Mock (development) and Real (Twilio/SendGrid) senders
"""

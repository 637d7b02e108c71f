"""
Central constants for the Blitz marketplace.
"""
from __future__ import annotations

# User roles
ROLE_CREATOR = "CREATOR"
ROLE_SPONSOR = "SPONSOR"
ROLE_ADMIN = "ADMIN"
VALID_ROLES = (ROLE_CREATOR, ROLE_SPONSOR, ROLE_ADMIN)

# Registration role aliases (frontend sends "business" for sponsors)
ROLE_ALIASES = {
    "SPONSOR": ROLE_SPONSOR,
    "BUSINESS": ROLE_SPONSOR,
    "ADMIN": ROLE_ADMIN,
}

# Listings
LISTING_TYPES = ("SPONSORSHIP", "COLLABORATION", "PARTNERSHIP")
LISTING_OPEN = "OPEN"
LISTING_CLOSED = "CLOSED"
LISTING_DRAFT = "DRAFT"
LISTING_STATUSES = (LISTING_OPEN, LISTING_CLOSED, LISTING_DRAFT)

# Applications
APP_PENDING = "PENDING"
APP_ACCEPTED = "ACCEPTED"
APP_REJECTED = "REJECTED"
APP_WITHDRAWN = "WITHDRAWN"
APPLICATION_STATUSES = (APP_PENDING, APP_ACCEPTED, APP_REJECTED, APP_WITHDRAWN)

# Payments
PAY_PENDING = "PENDING"
PAY_COMPLETED = "COMPLETED"
PAY_FAILED = "FAILED"
PAY_REFUNDED = "REFUNDED"
PAYMENT_STATUSES = (PAY_PENDING, PAY_COMPLETED, PAY_FAILED, PAY_REFUNDED)
PAYMENT_TRANSITIONS = {
    PAY_PENDING: frozenset({PAY_COMPLETED, PAY_FAILED}),
    PAY_FAILED: frozenset({PAY_PENDING}),
    PAY_COMPLETED: frozenset({PAY_REFUNDED}),
    PAY_REFUNDED: frozenset(),
}

# Token lifetimes (hours)
VERIFICATION_TOKEN_HOURS = 24
RESET_TOKEN_HOURS = 1

# Uploads
LOGO_MAX_BYTES = 5 * 1024 * 1024
LOGO_CONTENT_TYPES = frozenset({"image/png", "image/jpeg", "image/gif", "image/webp"})

# Notification preference channels and their default flags
DEFAULT_NOTIFICATION_PREFS = {
    "emailNotifications": {
        "newMessages": True,
        "applicationUpdates": True,
        "listingMatches": True,
        "paymentUpdates": True,
        "weeklyDigest": False,
    },
    "pushNotifications": {
        "newMessages": True,
        "applicationUpdates": True,
        "listingMatches": False,
        "paymentUpdates": True,
    },
    "smsNotifications": {
        "paymentUpdates": False,
        "urgentUpdates": False,
    },
}

# Default categories seeded by scripts/init_db.py
DEFAULT_CATEGORIES = (
    "Food & Drink",
    "Fitness",
    "Fashion",
    "Music",
    "Sports",
    "Technology",
    "Travel",
    "Community Events",
)

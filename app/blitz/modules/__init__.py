"""
Marketplace feature modules.

Each module owns its models/service/api; shared pieces (auth, role guards,
audit, storage, DB session) come from app.blitz.
"""

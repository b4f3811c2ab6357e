"""
Marketsession - Client Session Lifecycle

Keeps the marketplace web client's authentication session alive against
a hosted auth provider.

Architecture:
- Each module is self-contained with clear interfaces
- Modules are completely replaceable
- No module knows the internals of another
- All communication through defined interfaces

Modules:
- auth: Auth provider adapters, errors and notifications
- session: Session store, refresh scheduling, refresh execution, event handling
- api: HTTP view of the session lifecycle
"""

__version__ = "1.0.0"

"""
Marketsession Modules

- auth: talks to the auth provider and classifies its failures
- session: owns the session and keeps it fresh
- api: wire shapes for the status endpoints

session depends on auth only through the AuthProvider and
NotificationSink protocols.
"""

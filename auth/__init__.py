"""auth/ -- Accounts, credentials, sessions, and the access control guard.

Layer rule: auth/ imports only core/ + stdlib + third-party libraries.
It does NOT import from api/, invites/, submissions/, or notify/ (the
Publisher protocol is passed in by whoever builds the services).
api/ imports from auth/, not the other way around.
"""

"""submissions/ -- Public project submissions and their review workflow.

Layer rule: submissions/ imports core/, auth/ (for account summaries) and the
notify/ interfaces. It never imports from api/ or invites/.
"""

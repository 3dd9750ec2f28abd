"""invites/ -- Role-granting invitations: issue, resend, redeem, revoke, sweep.

Layer rule: invites/ imports core/, auth/ and the notify/ Publisher protocol.
It never imports from api/ or submissions/.
"""

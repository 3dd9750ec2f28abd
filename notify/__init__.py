"""notify/ -- Outbound side effects: mail and real-time events.

Nothing in here may fail the operation that triggered it. Mailer.send()
returns False on any failure; publishers drop events nobody is listening for.

Layer rule: notify/ imports only core/ + stdlib + third-party libraries.
"""

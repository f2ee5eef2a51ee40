"""SafeCheck: scheduled safety check-ins with automatic escalation.

A check-in is a promise to confirm safety by a deadline. If the owner does
not submit the verification code in time, the escalation sweep notifies the
check-in's emergency contacts by SMS and email.
"""

__version__ = "0.1.0"

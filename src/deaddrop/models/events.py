"""
Notification names raised by the delivery services.
"""


class Notification:
    OFFLINE_MESSAGES_SENT = "offline messages sent"
    NEW_MESSAGES = "new messages"
    PRESENCE_UPDATED = "presence updated"

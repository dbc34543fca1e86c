"""
External collaborators: the order source, the notification channel and
the snapshot store.
"""

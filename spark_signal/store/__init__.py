from spark_signal.store.conversations import ConversationStore

__all__ = [
    "ConversationStore",
]

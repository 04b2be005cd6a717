"""echojournal: adaptive follow-up conversations for voice journal entries.

Turns a single recorded entry into a guided interview, then derives tags,
feelings, a headline and a summary from the conversation.
"""

__version__ = "0.1.0"

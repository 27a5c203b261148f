"""
studymate - spaced-repetition learning assistant.

Conversations and course progress are kept in a GitHub repository (with a
local SQLite cache), lessons are generated through a language-model proxy,
and study sessions can be merged with a Notion database.
"""

__version__ = "0.3.0"

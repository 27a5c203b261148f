"""
Sync Engine.

Components:
- reconciler: Local cache + remote file store persistence
- course_progress: courseList/courseProgress.json repository
- conversations: Daily conversation logs
- notion_client: Notion Sessions database wrapper
- progress_sync: Session merge with Notion
"""

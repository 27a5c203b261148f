"""
Delivery: the tutor flows and the reminder scheduler.

Import from the submodules directly (studymate.delivery.tutor,
studymate.delivery.scheduler).
"""

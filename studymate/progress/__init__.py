"""Study session log, credibility scoring and review-due policies."""

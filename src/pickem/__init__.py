"""
Pickem - Tennis Draw Prediction Contest

Users predict the winner and set score of every match in a tournament
draw, round by round, and earn points, streaks and achievements as the
admin records results.

Main components:
- db: SQLAlchemy models and session management
- draw: Bracket arithmetic (feeder and target matches, round names)
- scores: Tennis score string parsing
- scoring: Pick scoring, streaks and achievements
- services: Draw commit, admin state machine, picks, leaderboards, summary
"""

__version__ = "1.0.0"

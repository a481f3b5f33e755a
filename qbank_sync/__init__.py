"""qbank-sync: keep Moodle-style question banks and quizzes in sync with files."""

__version__ = "0.1.0"

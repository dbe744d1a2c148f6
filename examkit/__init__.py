"""
ExamKit - Online test authoring, moderation and evaluation service
"""

__version__ = "1.0.0"

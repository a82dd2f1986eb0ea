# interview_engine/api/__init__.py

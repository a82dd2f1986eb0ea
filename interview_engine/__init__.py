# interview_engine/__init__.py

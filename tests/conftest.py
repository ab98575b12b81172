import os

# Keep test runs from writing rotating log files into the working tree.
os.environ.setdefault("ENABLE_FILE_LOGGING", "0")
os.environ.setdefault("SENTRY_DSN", "")

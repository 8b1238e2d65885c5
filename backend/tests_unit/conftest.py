import os

# Settings validation refuses the production defaults without secrets
os.environ.setdefault("ENVIRONMENT", "development")

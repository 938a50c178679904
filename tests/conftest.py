import os

os.environ.setdefault("AWS_REGION", "us-east-1")
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("WHATSAPP_TOKEN", "dummy-token")
os.environ.setdefault("WHATSAPP_PHONE_NUMBER_ID", "PN-123")
os.environ.setdefault("WEBHOOK_VERIFY_TOKEN", "verify-me")
os.environ.setdefault("FOLLOW_UP_DELAY_SECONDS", "0")
os.environ.setdefault("POWERTOOLS_SERVICE_NAME", "pharmacare-tests")

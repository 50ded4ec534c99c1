#!/usr/bin/env python3
# backend/run.py
"""
Development server runner.

Uses the in-memory payment provider and the console mailer unless the
environment already configures real ones.
"""
import os
from pathlib import Path
import sys

backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))
os.chdir(backend_dir)

os.environ.setdefault("PAYMENT_PROVIDER_FAKE", "true")
os.environ.setdefault("EMAIL_PROVIDER", "console")

import uvicorn

if __name__ == "__main__":
    print("Starting MixLab booking API at http://localhost:8000 (docs at /docs)")
    uvicorn.run("mixlab.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")

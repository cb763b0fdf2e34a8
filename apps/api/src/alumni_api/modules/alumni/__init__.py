"""
Alumni Module

Registration, email verification, moderation and directory listing for
the school's alumni network.

Workflow:
1. An alumnus registers; the record starts unverified and pending
2. They confirm their email with the emailed link (or an admin verifies by hand)
3. An admin approves or rejects; the alumnus is notified
4. Approved, active profiles appear in the public directory

API Endpoints:
- /alumni/...        - Public directory, registration and verification (router.py)
- /admin/alumni/...  - Moderation and admin directory (admin_router.py)

Background Jobs (via APScheduler):
- alumni_retry_notifications: re-sends approval/rejection emails that failed
"""

from .admin_router import router as admin_router
from .jobs import register_alumni_jobs
from .router import router

__all__ = ["router", "admin_router", "register_alumni_jobs"]

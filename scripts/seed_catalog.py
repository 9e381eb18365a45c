#!/usr/bin/env python3
"""
Seed demo categories, job accounts and their 30-day task programs (empty DB only).
Run from the project root: python -m scripts.seed_catalog
"""
import os
import sys

# project root on PYTHONPATH
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.core.config import settings
from app.db.init_db import init_db
from app.db.session import SessionLocal
from app.models.category import Category
from app.models.daily_task import DailyTask
from app.models.job_account import JobAccount

CATEGORIES = [
    ("Data Entry", "Typing, transcription and data cleanup", "⌨️", 2000, 15000),
    ("Writing", "Articles, copywriting and academic writing", "✍️", 5000, 40000),
    ("Virtual Assistance", "Email, scheduling and customer support", "💼", 3000, 25000),
]

JOBS = [
    ("Data Entry", "Remote Data Entry Clerk", "Enter and verify records for international clients.", 3500, 20),
    ("Writing", "Freelance Content Writer", "Write SEO blog posts for marketing agencies.", 8500, 10),
    ("Virtual Assistance", "Customer Support Assistant", "Answer chat and email tickets for online stores.", 6000, None),
]


def main():
    if settings.db_auto_create:
        init_db()
    db = SessionLocal()
    try:
        if db.query(Category).count():
            print("Catalog already seeded.")
            return
        categories = {}
        for name, description, icon, min_price, max_price in CATEGORIES:
            category = Category(name=name, description=description, icon=icon, min_price=min_price, max_price=max_price)
            db.add(category)
            categories[name] = category
        db.flush()
        for category_name, title, description, price, stock in JOBS:
            job = JobAccount(
                category_id=categories[category_name].id,
                title=title,
                description=description,
                price=price,
                total_stock=stock,
                is_available=True,
            )
            db.add(job)
            db.flush()
            for day in range(1, settings.purchase_program_days + 1):
                db.add(DailyTask(
                    job_account_id=job.id,
                    day_number=day,
                    title=f"Day {day}: {title}",
                    description=f"Complete the day {day} assignment and submit your notes.",
                    estimated_time="1-2 hours",
                ))
        db.commit()
        print(f"Seeded {len(CATEGORIES)} categories and {len(JOBS)} job accounts.")
    finally:
        db.close()


if __name__ == "__main__":
    main()

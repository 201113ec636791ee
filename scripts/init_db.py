#!/usr/bin/env python3
"""Create the barbershop tables in the configured database"""
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from barbershop import create_app
from barbershop.extensions import db
from barbershop.models import Appointment, Barber, Client, Expense, Product, Sale, ScheduleBlock, Service

def init_database():
    app = create_app()
    with app.app_context():
        db.create_all()
        counts = {
            model.__tablename__: model.query.count()
            for model in (Client, Barber, Service, Product, Appointment, Sale, ScheduleBlock, Expense)
        }
        print("✅ Database tables ready")
        for table, count in counts.items():
            print(f"   {table}: {count} rows")

if __name__ == "__main__":
    init_database()

"""
Seed Demo Data: one admin, two controllers, two clients and a few projects.

Usage:
    python scripts/seed_demo_data.py              # Uses development DB
    python scripts/seed_demo_data.py --env production  # Uses DATABASE_URL

This script is idempotent: users are matched by email and projects are only
created for clients that have none yet. Projects are created through the
lifecycle service so the creation notifications are fanned out as well.
"""

import argparse
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from agencyflow import create_app
from agencyflow.core.requester import Requester
from agencyflow.models import db
from agencyflow.models.notification import Notification
from agencyflow.models.project import Project
from agencyflow.models.user import ROLE_ADMIN, ROLE_CLIENT, ROLE_CONTROLLER, User
from agencyflow.services import project_service


USERS = [
    # (email, first_name, last_name, role)
    ("admin@agencyflow.local", "Ada", "Admin", ROLE_ADMIN),
    ("ctrl.one@agencyflow.local", "Cem", "Controller", ROLE_CONTROLLER),
    ("ctrl.two@agencyflow.local", "Deniz", "Controller", ROLE_CONTROLLER),
    ("client.acme@example.com", "Acme", "Client", ROLE_CLIENT),
    ("client.globex@example.com", "Globex", "Client", ROLE_CLIENT),
]

PROJECTS = [
    # (client email, controller email, title, amount)
    ("client.acme@example.com", "ctrl.one@agencyflow.local", "Acme Web Relaunch", "12500.00"),
    ("client.acme@example.com", None, "Acme Brand Guidelines", "3200.00"),
    ("client.globex@example.com", "ctrl.two@agencyflow.local", "Globex Mobile App", "48000.00"),
]


def seed_users():
    users = {}
    for email, first_name, last_name, role in USERS:
        user = User.query.filter_by(email=email).first()
        if user is None:
            user = User(email=email, first_name=first_name, last_name=last_name, role=role)
            db.session.add(user)
            print(f"  + {role:10s} {email}")
        users[email] = user
    db.session.commit()
    return users


def seed_projects(users):
    admin = users["admin@agencyflow.local"]
    requester = Requester(id=admin.id, role=ROLE_ADMIN)
    for client_email, controller_email, title, amount in PROJECTS:
        client = users[client_email]
        if Project.query.filter_by(client_id=client.id, title=title).first():
            continue
        data = {
            "title": title,
            "client_id": client.id,
            "controller_id": users[controller_email].id if controller_email else None,
            "amount": amount,
        }
        project = project_service.create_project(data, requester)
        print(f"  + project #{project.id} {title}")


def main():
    parser = argparse.ArgumentParser(description="Seed demo users and projects")
    parser.add_argument("--env", default="development", choices=["development", "production"], help="App environment")
    args = parser.parse_args()

    os.environ.setdefault("APP_ENV", args.env)
    app = create_app(args.env)

    with app.app_context():
        print("=" * 60)
        print("  SEED: Demo users & projects")
        print("=" * 60)

        print("\nSeeding users...")
        users = seed_users()

        print("\nSeeding projects...")
        seed_projects(users)

        print("\n" + "=" * 60)
        print("  SUMMARY")
        print("=" * 60)
        print(f"  Users:         {User.query.count()}")
        print(f"  Projects:      {Project.query.count()}")
        print(f"  Notifications: {Notification.query.count()}")
        print("\nSeed complete!")


if __name__ == "__main__":
    main()

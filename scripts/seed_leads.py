import sys
from datetime import timedelta
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from nurture.core.enums import Channel, Direction, LeadStage
from nurture.database.db import get_db_session
from nurture.database.init_db import init_db
from nurture.intelligence.clock import utcnow
from nurture.models import Communication, Lead

DEMO_LEADS = [
    {
        "first_name": "Sarah",
        "last_name": "Chen",
        "phone": "+16045550101",
        "email": "sarah.chen@example.com",
        "stage": LeadStage.NEW,
        "attributes": {"province": "British Columbia", "loan_type": "purchase", "motivation_level": "Buying soon"},
    },
    {
        "first_name": "Marcus",
        "last_name": "Leblanc",
        "phone": "+15145550102",
        "email": "marcus.leblanc@example.com",
        "stage": LeadStage.ENGAGED,
        "attributes": {"province": "Quebec", "loan_type": "refinance", "ad_source": "Google"},
    },
    {
        "first_name": "Priya",
        "last_name": "Natarajan",
        "phone": "+14035550103",
        "email": "priya.n@example.com",
        "stage": LeadStage.CONTACTED,
        "attributes": {"province": "Alberta", "loan_type": "purchase", "motivation_level": "Accepted offer to purchase"},
    },
]


def seed_leads():
    init_db()
    now = utcnow()
    with get_db_session() as db:
        try:
            if db.query(Lead).filter(Lead.email == DEMO_LEADS[0]["email"]).first():
                print("Seed leads already exist.")
                return

            for payload in DEMO_LEADS:
                lead = Lead(consent_sms=True, consent_email=True, managed_by_autonomous=True, **payload)
                db.add(lead)
                db.flush()
                if lead.stage != LeadStage.NEW:
                    lead.last_contacted_at = now - timedelta(hours=30)
                    db.add(
                        Communication(
                            lead_id=lead.id,
                            direction=Direction.OUTBOUND,
                            channel=Channel.SMS,
                            content=f"Hi {lead.first_name}, following up on your mortgage inquiry.",
                            created_at=now - timedelta(hours=30),
                        )
                    )
                print(f"Seeded lead: {lead.first_name} {lead.last_name} ({lead.stage.value})")
            db.commit()
        except Exception as e:
            print(f"Error seeding data: {e}")
            db.rollback()
            raise


if __name__ == "__main__":
    seed_leads()

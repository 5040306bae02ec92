from typing import Optional

from fastapi import Depends
from sqlalchemy.orm import Session, sessionmaker

from app.features.accessibility.services.orchestrator import Dispatcher, ScanOrchestrator
from app.features.accessibility.services.rule_engine import shared_rule_engine
from app.features.accessibility.services.scan_service import AccessibilityScanService
from app.platform.db.session import get_db


def get_scan_dispatcher() -> Optional[Dispatcher]:
    """Hands queued scans to the Celery workers."""
    from app.features.accessibility.workers.tasks import dispatch_scan

    return dispatch_scan


def get_scan_service(
    db: Session = Depends(get_db),
    dispatcher: Optional[Dispatcher] = Depends(get_scan_dispatcher),
) -> AccessibilityScanService:
    # Scan units of work get their own sessions on the request's engine
    session_factory = sessionmaker(bind=db.get_bind(), expire_on_commit=False, autoflush=False)
    orchestrator = ScanOrchestrator(session_factory, engine=shared_rule_engine(), dispatcher=dispatcher)
    return AccessibilityScanService(db, orchestrator)

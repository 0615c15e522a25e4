"""Signal receivers connected in WashmanConfig.ready()."""

import logging

from django.dispatch import receiver

from washman.conf import washman_settings
from washman.signals import visit_completed

logger = logging.getLogger(__name__)


@receiver(visit_completed, dispatch_uid="washman.handlers.on_visit_completed")
def on_visit_completed(sender, vehicle_id=None, license_plate=None, visit_id=None, **kwargs):
    """
    Record the visit and, unless AUTO_ISSUE_ON_VISIT is off, issue earned offers.

    Errors propagate to the sender: a visit that cannot be counted must not
    pass silently.
    """
    from washman.services import LoyaltyEngine, VisitLedger

    if vehicle_id is None:
        vehicle_id = VisitLedger.resolve_plate(license_plate or "")

    if not washman_settings.AUTO_ISSUE_ON_VISIT:
        VisitLedger.record_visit(vehicle_id)
        return None

    outcome = LoyaltyEngine.register_visit(vehicle_id, visit_id=visit_id)
    if outcome.issued:
        logger.info(
            "Visit %s for vehicle=%s earned %d offer(s)",
            visit_id,
            vehicle_id,
            len(outcome.issued),
        )
    return outcome

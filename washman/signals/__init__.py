"""
Washman signals - public event API.

Consumed signals:
- visit_completed: Sent by the service registry when a wash is recorded.
  Handled by washman.handlers (record visit + evaluate offers).

Emitted signals (sent once the surrounding transaction commits):
- visit_recorded: Emitted by VisitLedger.record_visit()
- offer_issued: Emitted by LoyaltyEngine.evaluate_and_issue() / issue()
- offer_redeemed: Emitted by LoyaltyEngine.mark_used()
- offer_expired: Emitted by LoyaltyEngine.mark_expired() / expire_stale_offers()
"""

from django.dispatch import Signal

# Inbound (sent by the service registry)
visit_completed = Signal()  # sender, vehicle_id | license_plate, visit_id

# Loyalty signals (emitted by services)
visit_recorded = Signal()  # sender=VehicleStats, stats=VehicleStats
offer_issued = Signal()  # sender=VehicleOffer, vehicle_offer=VehicleOffer
offer_redeemed = Signal()  # sender=VehicleOffer, vehicle_offer=VehicleOffer
offer_expired = Signal()  # sender=VehicleOffer, offer=Offer, count=int, reason=str

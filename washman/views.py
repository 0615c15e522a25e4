"""
Washman JSON endpoints.

Thin HTTP layer over the services. Authentication/authorization is the host
project's concern (wrap the URLconf or add middleware).

Error mapping:
    ValidationError   -> 400
    NotFoundError     -> 404
    ConflictError     -> 409
    InvalidStateError -> 409
    StorageError      -> 500
"""

from __future__ import annotations

import json
import logging

from django.core.paginator import Paginator
from django.http import JsonResponse
from django.utils.dateparse import parse_date
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from washman.adapters.vehicles import get_vehicle_directory
from washman.conf import washman_settings
from washman.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    StorageError,
    ValidationError,
    WashmanError,
)
from washman.patch import OfferPatch, StatsPatch
from washman.protocols.vehicles import VehicleInfo
from washman.services import LoyaltyEngine, OfferCatalog, VisitLedger

logger = logging.getLogger(__name__)

# Largest BIGINT; ids and counters beyond it cannot reach the database
MAX_ID = 2**63 - 1


# ===========================================
# Serialization
# ===========================================


def _iso(value):
    return value.isoformat() if value else None


def offer_to_dict(offer) -> dict:
    return {
        "id": offer.pk,
        "name": offer.name,
        "description": offer.description,
        "visit_threshold": offer.visit_threshold,
        "discount_type": offer.discount_type,
        "discount_value": f"{offer.discount_value:.2f}",
        "discount_display": offer.discount_display,
        "is_active": offer.is_active,
        "valid_from": _iso(offer.valid_from),
        "valid_until": _iso(offer.valid_until),
        "created_at": _iso(offer.created_at),
        "updated_at": _iso(offer.updated_at),
    }


def _vehicle_fields(vehicle: VehicleInfo | None) -> dict:
    return {
        "license_plate": vehicle.license_plate if vehicle else None,
        "owner_name": vehicle.owner_name if vehicle else None,
    }


def stats_to_dict(stats, vehicle: VehicleInfo | None = None) -> dict:
    return {
        "vehicle_id": stats.vehicle_id,
        **_vehicle_fields(vehicle),
        "total_visits": stats.total_visits,
        "current_visit_count": stats.current_visit_count,
        "total_offers_earned": stats.total_offers_earned,
        "total_offers_used": stats.total_offers_used,
        "offers_outstanding": stats.offers_outstanding,
        "last_visit_date": _iso(stats.last_visit_date),
    }


def vehicle_offer_to_dict(vehicle_offer, vehicle: VehicleInfo | None = None) -> dict:
    return {
        "id": vehicle_offer.pk,
        "vehicle_id": vehicle_offer.vehicle_id,
        **_vehicle_fields(vehicle),
        "offer_id": vehicle_offer.offer_id,
        "offer_name": vehicle_offer.offer.name,
        "visit_threshold": vehicle_offer.offer.visit_threshold,
        "discount_type": vehicle_offer.offer.discount_type,
        "discount_value": f"{vehicle_offer.offer.discount_value:.2f}",
        "earned_on_visit_id": vehicle_offer.earned_on_visit_id,
        "issued_date": _iso(vehicle_offer.issued_date),
        "status": vehicle_offer.status,
        "used_date": _iso(vehicle_offer.used_date),
        "used_on_visit_id": vehicle_offer.used_on_visit_id,
        "notes": vehicle_offer.notes,
    }


def _with_vehicles(serialize, rows) -> list[dict]:
    """Serialize rows keyed by vehicle_id with one directory lookup for the batch."""
    rows = list(rows)
    vehicles = get_vehicle_directory().get_many({row.vehicle_id for row in rows})
    return [serialize(row, vehicles.get(row.vehicle_id)) for row in rows]


def offers_to_list(offers) -> list[dict]:
    return [offer_to_dict(offer) for offer in offers]


def stats_to_list(rows) -> list[dict]:
    return _with_vehicles(stats_to_dict, rows)


def vehicle_offers_to_list(rows) -> list[dict]:
    return _with_vehicles(vehicle_offer_to_dict, rows)


def _stats_data(stats) -> dict:
    return stats_to_list([stats])[0]


def _vehicle_offer_data(vehicle_offer) -> dict:
    return vehicle_offers_to_list([vehicle_offer])[0]


# ===========================================
# Request parsing
# ===========================================


def _json_body(request) -> dict:
    if not request.body:
        return {}
    try:
        data = json.loads(request.body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("INVALID_REQUEST", message="Invalid JSON")
    if not isinstance(data, dict):
        raise ValidationError("INVALID_REQUEST", message="JSON body must be an object")
    return data


def _int(value, field: str, code: str = "INVALID_REQUEST"):
    """Coerce query/body values to int. None and "" mean absent."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(code, message=f"{field} must be an integer", **{field: value})
    if isinstance(value, int):
        number = value
    else:
        try:
            number = int(str(value).strip())
        except ValueError:
            raise ValidationError(code, message=f"{field} must be an integer", **{field: value})
    if abs(number) > MAX_ID:
        raise ValidationError(code, message=f"{field} is out of range", **{field: str(value)})
    return number


def _bool(value):
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _date(value, field: str):
    if value is None or value == "":
        return None
    try:
        parsed = parse_date(str(value))
    except ValueError:
        parsed = None
    if parsed is None:
        raise ValidationError(
            "INVALID_REQUEST",
            message=f"{field} must be a date (YYYY-MM-DD)",
            **{field: value},
        )
    return parsed


def _paginate(request, items, serialize_page) -> dict:
    limit = _int(request.GET.get("limit"), "limit") or washman_settings.PAGE_SIZE
    limit = max(1, min(limit, washman_settings.MAX_PAGE_SIZE))

    paginator = Paginator(items, limit)
    page = paginator.get_page(request.GET.get("page"))
    return {
        "success": True,
        "data": serialize_page(page.object_list),
        "pagination": {
            "page": page.number,
            "limit": limit,
            "total": paginator.count,
            "pages": paginator.num_pages,
        },
    }


def _ok(data=None, message: str = "", status: int = 200) -> JsonResponse:
    payload = {"success": True, "data": data}
    if message:
        payload["message"] = message
    return JsonResponse(payload, status=status)


def _status_for(exc: WashmanError) -> int:
    if isinstance(exc, (ConflictError, InvalidStateError)):
        return 409
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, NotFoundError):
        return 404
    return 500


# ===========================================
# Base view
# ===========================================


@method_decorator(csrf_exempt, name="dispatch")
class WashmanView(View):
    """Translates WashmanError into JSON error responses."""

    def dispatch(self, request, *args, **kwargs):
        try:
            return super().dispatch(request, *args, **kwargs)
        except WashmanError as exc:
            status = _status_for(exc)
            if isinstance(exc, StorageError):
                logger.error("Storage failure on %s %s: %s", request.method, request.path, exc.data)
            return JsonResponse({"success": False, "error": exc.as_dict()}, status=status)
        except Exception:
            logger.exception("Unexpected failure on %s %s", request.method, request.path)
            return JsonResponse(
                {"success": False, "error": {"code": "INTERNAL_ERROR", "message": "Internal error", "data": {}}},
                status=500,
            )


# ===========================================
# Offers
# ===========================================


def _offer_fields(body: dict) -> dict:
    """Coerce the typed fields of an offer payload; untouched keys stay absent."""
    fields = dict(body)
    if "visit_threshold" in fields:
        fields["visit_threshold"] = _int(fields["visit_threshold"], "visit_threshold", "INVALID_THRESHOLD")
    for key in ("valid_from", "valid_until"):
        if key in fields:
            fields[key] = _date(fields[key], key)
    if "is_active" in fields:
        fields["is_active"] = bool(_bool(fields["is_active"]))
    return fields


class OfferListView(WashmanView):
    def get(self, request):
        params = request.GET
        offers = OfferCatalog.list(
            is_active=_bool(params.get("is_active")),
            discount_type=params.get("discount_type") or None,
            min_visit_threshold=_int(params.get("min_threshold"), "min_threshold"),
            max_visit_threshold=_int(params.get("max_threshold"), "max_threshold"),
            name=params.get("name") or None,
            valid_on=_date(params.get("valid_on"), "valid_on"),
            sort_by=params.get("sort_by") or None,
            sort_order=params.get("sort_order", "desc"),
        )
        return JsonResponse(_paginate(request, offers, offers_to_list))

    def post(self, request):
        fields = _offer_fields(_json_body(request))
        offer = OfferCatalog.create(
            name=fields.get("name", ""),
            visit_threshold=fields.get("visit_threshold"),
            discount_type=fields.get("discount_type"),
            discount_value=fields.get("discount_value"),
            description=fields.get("description", ""),
            is_active=fields.get("is_active", True),
            valid_from=fields.get("valid_from"),
            valid_until=fields.get("valid_until"),
        )
        return _ok(offer_to_dict(offer), "Offer created successfully", status=201)


class ActiveOffersView(WashmanView):
    def get(self, request):
        offers = OfferCatalog.list_active(_date(request.GET.get("as_of"), "as_of"))
        return _ok([offer_to_dict(o) for o in offers])


class OffersExpiringSoonView(WashmanView):
    def get(self, request):
        days = _int(request.GET.get("days"), "days") or washman_settings.EXPIRING_SOON_DAYS
        return _ok([offer_to_dict(o) for o in OfferCatalog.expiring_soon(days)])


class OffersStartingSoonView(WashmanView):
    def get(self, request):
        days = _int(request.GET.get("days"), "days") or washman_settings.EXPIRING_SOON_DAYS
        return _ok([offer_to_dict(o) for o in OfferCatalog.starting_soon(days)])


class OfferSearchView(WashmanView):
    def get(self, request):
        term = (request.GET.get("q") or "").strip()
        if not term:
            raise ValidationError("INVALID_REQUEST", message="Search term is required")
        limit = _int(request.GET.get("limit"), "limit") or 20
        return _ok([offer_to_dict(o) for o in OfferCatalog.search(term, limit=limit)])


class OfferBulkStatusView(WashmanView):
    def put(self, request):
        body = _json_body(request)
        ids = body.get("offer_ids")
        if not isinstance(ids, list) or not ids:
            raise ValidationError("INVALID_REQUEST", message="offer_ids must be a non-empty array")
        if "is_active" not in body:
            raise ValidationError("INVALID_REQUEST", message="is_active is required")
        offer_ids = [_int(i, "offer_ids") for i in ids]
        count = OfferCatalog.bulk_set_active(offer_ids, bool(_bool(body["is_active"])))
        return _ok({"updated_count": count})

    post = put


class OfferDetailView(WashmanView):
    def get(self, request, offer_id):
        return _ok(offer_to_dict(OfferCatalog.get(offer_id)))

    def put(self, request, offer_id):
        patch = OfferPatch.from_dict(_offer_fields(_json_body(request)))
        offer = OfferCatalog.update(offer_id, patch)
        return _ok(offer_to_dict(offer), "Offer updated successfully")

    patch = put

    def delete(self, request, offer_id):
        OfferCatalog.delete(offer_id)
        return _ok(None, "Offer deleted successfully")


class OfferToggleStatusView(WashmanView):
    def put(self, request, offer_id):
        offer = OfferCatalog.get(offer_id)
        offer = OfferCatalog.update(offer_id, OfferPatch(is_active=not offer.is_active))
        return _ok(offer_to_dict(offer))

    post = put


class OfferStatisticsView(WashmanView):
    def get(self, request):
        return _ok(OfferCatalog.statistics())


# ===========================================
# Vehicle stats
# ===========================================


_STATS_COUNTERS = ("total_visits", "current_visit_count", "total_offers_earned", "total_offers_used")


def _vehicle_id_from(data) -> int:
    """vehicle_id, or the vehicle resolved from license_plate."""
    vehicle_id = _int(data.get("vehicle_id"), "vehicle_id")
    if vehicle_id is not None:
        return vehicle_id
    plate = (data.get("license_plate") or "").strip()
    if not plate:
        raise ValidationError(
            "INVALID_REQUEST",
            message="Either vehicle_id or license_plate is required",
        )
    return VisitLedger.resolve_plate(plate)


class RecordVisitView(WashmanView):
    def post(self, request):
        body = _json_body(request)
        vehicle_id = _vehicle_id_from(body)
        visit_id = _int(body.get("visit_id"), "visit_id")

        if washman_settings.AUTO_ISSUE_ON_VISIT:
            outcome = LoyaltyEngine.register_visit(vehicle_id, visit_id=visit_id)
            stats, issued = outcome.stats, outcome.issued
        else:
            stats, issued = VisitLedger.record_visit(vehicle_id), []

        data = _stats_data(stats)
        data["offers_issued"] = vehicle_offers_to_list(issued)
        return _ok(data, "Visit recorded successfully")


class StatsListView(WashmanView):
    def get(self, request):
        params = request.GET
        stats = VisitLedger.list(
            min_visits=_int(params.get("min_visits"), "min_visits"),
            min_current_visits=_int(params.get("min_current_visits"), "min_current_visits"),
            has_offers_earned=_bool(params.get("has_offers_earned")),
            has_offers_used=_bool(params.get("has_offers_used")),
            license_plate=params.get("license_plate") or None,
            owner_name=params.get("owner_name") or None,
            sort_by=params.get("sort_by") or None,
            sort_order=params.get("sort_order", "desc"),
        )
        return JsonResponse(_paginate(request, stats, stats_to_list))


class EligibleVehiclesView(WashmanView):
    def get(self, request):
        threshold = _int(request.GET.get("threshold"), "threshold", "INVALID_THRESHOLD")
        if threshold is None or threshold <= 0:
            raise ValidationError("INVALID_THRESHOLD")
        return _ok(stats_to_list(VisitLedger.eligible(threshold)))


class NearThresholdView(WashmanView):
    def get(self, request):
        threshold = _int(request.GET.get("threshold"), "threshold", "INVALID_THRESHOLD")
        if threshold is None or threshold <= 0:
            raise ValidationError("INVALID_THRESHOLD")
        buffer = _int(request.GET.get("buffer"), "buffer")
        return _ok(stats_to_list(VisitLedger.near_threshold(threshold, buffer)))


class VehicleStatsView(WashmanView):
    def get(self, request, vehicle_id):
        return _ok(_stats_data(VisitLedger.get_stats(vehicle_id)))

    def put(self, request, vehicle_id):
        """Manual counter correction; only the provided counters change."""
        body = _json_body(request)
        changes = StatsPatch(
            **{key: _int(body[key], key, "INVALID_STATS") for key in _STATS_COUNTERS if body.get(key) is not None}
        )
        if not changes.provided():
            raise ValidationError("INVALID_REQUEST", message="No counters to update")
        stats = VisitLedger.adjust(vehicle_id, changes)
        return _ok(_stats_data(stats), "Vehicle stats updated successfully")

    patch = put


class ResetVisitCountView(WashmanView):
    def post(self, request, vehicle_id):
        stats = VisitLedger.reset_visit_count(vehicle_id)
        return _ok(_stats_data(stats), "Visit count reset successfully")


class InitializeStatsView(WashmanView):
    def post(self, request, vehicle_id):
        if get_vehicle_directory().get(vehicle_id) is None:
            raise NotFoundError("VEHICLE_NOT_FOUND", vehicle_id=vehicle_id)
        return _ok(_stats_data(VisitLedger.initialize(vehicle_id)), "Vehicle stats initialized")


class PlateStatsView(WashmanView):
    def get(self, request, license_plate):
        return _ok(_stats_data(VisitLedger.get_stats_by_plate(license_plate)))


class StatsOverviewView(WashmanView):
    def get(self, request):
        return _ok(VisitLedger.overview())


class TopVehiclesView(WashmanView):
    def get(self, request):
        limit = _int(request.GET.get("limit"), "limit") or 10
        return _ok(stats_to_list(VisitLedger.top_by_visits(max(1, min(limit, washman_settings.MAX_PAGE_SIZE)))))


class MostOffersView(WashmanView):
    def get(self, request):
        limit = _int(request.GET.get("limit"), "limit") or 10
        return _ok(stats_to_list(VisitLedger.most_offers(max(1, min(limit, washman_settings.MAX_PAGE_SIZE)))))


# ===========================================
# Vehicle offers
# ===========================================


class VehicleOfferListView(WashmanView):
    def get(self, request):
        params = request.GET
        vehicle_offers = LoyaltyEngine.list(
            vehicle_id=_int(params.get("vehicle_id"), "vehicle_id"),
            offer_id=_int(params.get("offer_id"), "offer_id"),
            status=params.get("status") or None,
            license_plate=params.get("license_plate") or None,
            owner_name=params.get("owner_name") or None,
            start_date=_date(params.get("start_date"), "start_date"),
            end_date=_date(params.get("end_date"), "end_date"),
            sort_by=params.get("sort_by") or None,
            sort_order=params.get("sort_order", "desc"),
        )
        return JsonResponse(_paginate(request, vehicle_offers, vehicle_offers_to_list))

    def post(self, request):
        body = _json_body(request)
        vehicle_id = _int(body.get("vehicle_id"), "vehicle_id")
        offer_id = _int(body.get("offer_id"), "offer_id")
        if vehicle_id is None or offer_id is None:
            raise ValidationError("INVALID_REQUEST", message="vehicle_id and offer_id are required")
        vehicle_offer = LoyaltyEngine.issue(
            vehicle_id,
            offer_id,
            earned_on_visit_id=_int(body.get("earned_on_visit_id"), "earned_on_visit_id"),
            notes=body.get("notes") or "",
        )
        return _ok(_vehicle_offer_data(vehicle_offer), "Vehicle offer created successfully", status=201)


class VehicleOffersExpiringSoonView(WashmanView):
    def get(self, request):
        days = _int(request.GET.get("days"), "days")
        return _ok(vehicle_offers_to_list(LoyaltyEngine.expiring_soon(days)))


class CheckActiveOffersView(WashmanView):
    def get(self, request):
        result = LoyaltyEngine.check_active(
            vehicle_id=_int(request.GET.get("vehicle_id"), "vehicle_id"),
            license_plate=request.GET.get("license_plate") or None,
        )
        return _ok(
            {
                "vehicle_id": result.vehicle_id,
                "has_active_offers": result.has_active_offers,
                "active_offers_count": result.active_offers_count,
                "active_offers": vehicle_offers_to_list(result.active_offers),
            }
        )


class VehicleActiveOffersView(WashmanView):
    def get(self, request, vehicle_id):
        return _ok(vehicle_offers_to_list(LoyaltyEngine.active_for_vehicle(vehicle_id)))


class PlateVehicleOffersView(WashmanView):
    def get(self, request, license_plate):
        vehicle_id = VisitLedger.resolve_plate(license_plate)
        vehicle_offers = LoyaltyEngine.list(
            vehicle_id=vehicle_id,
            status=request.GET.get("status") or None,
        )
        return _ok(vehicle_offers_to_list(vehicle_offers))


class VehicleOfferDetailView(WashmanView):
    def get(self, request, vehicle_offer_id):
        return _ok(_vehicle_offer_data(LoyaltyEngine.get(vehicle_offer_id)))

    def put(self, request, vehicle_offer_id):
        body = _json_body(request)
        if "notes" not in body:
            raise ValidationError("INVALID_REQUEST", message="Only notes can be updated")
        vehicle_offer = LoyaltyEngine.annotate(vehicle_offer_id, body.get("notes") or "")
        return _ok(_vehicle_offer_data(vehicle_offer), "Vehicle offer updated successfully")

    patch = put

    def delete(self, request, vehicle_offer_id):
        LoyaltyEngine.delete(vehicle_offer_id)
        return _ok(None, "Vehicle offer deleted successfully")


class MarkUsedView(WashmanView):
    def put(self, request, vehicle_offer_id):
        body = _json_body(request)
        used_on_visit_id = _int(body.get("used_on_visit_id"), "used_on_visit_id")
        if used_on_visit_id is None:
            raise ValidationError("INVALID_REQUEST", message="Used on visit ID is required")
        vehicle_offer = LoyaltyEngine.mark_used(
            vehicle_offer_id,
            used_on_visit_id=used_on_visit_id,
            notes=body.get("notes"),
        )
        return _ok(_vehicle_offer_data(vehicle_offer), "Offer marked as used successfully")

    post = put


class MarkExpiredView(WashmanView):
    def put(self, request, vehicle_offer_id):
        body = _json_body(request)
        vehicle_offer = LoyaltyEngine.mark_expired(vehicle_offer_id, notes=body.get("notes"))
        return _ok(_vehicle_offer_data(vehicle_offer), "Offer marked as expired successfully")

    post = put


class BulkExpireView(WashmanView):
    def post(self, request):
        count = LoyaltyEngine.expire_stale_offers()
        return _ok({"expired_count": count}, f"Successfully expired {count} offers")


class VehicleOfferStatisticsView(WashmanView):
    def get(self, request):
        start_date = _date(request.GET.get("start_date"), "start_date")
        end_date = _date(request.GET.get("end_date"), "end_date")
        if start_date and end_date and start_date > end_date:
            raise ValidationError("INVALID_REQUEST", message="start_date must not be after end_date")
        return _ok(LoyaltyEngine.statistics(start_date=start_date, end_date=end_date))

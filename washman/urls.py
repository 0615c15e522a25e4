from django.urls import path, register_converter

from washman import views


class IdConverter:
    """Non-negative integer that fits a BIGINT primary key; larger values do not match (404)."""

    regex = "[0-9]+"

    def to_python(self, value):
        number = int(value)
        if number > views.MAX_ID:
            raise ValueError(f"{value} is out of range")
        return number

    def to_url(self, value):
        return str(value)


register_converter(IdConverter, "washman_id")

app_name = "washman"

urlpatterns = [
    # Offers
    path("offers/", views.OfferListView.as_view(), name="offer-list"),
    path("offers/active/", views.ActiveOffersView.as_view(), name="offer-active"),
    path("offers/expiring-soon/", views.OffersExpiringSoonView.as_view(), name="offer-expiring-soon"),
    path("offers/starting-soon/", views.OffersStartingSoonView.as_view(), name="offer-starting-soon"),
    path("offers/search/", views.OfferSearchView.as_view(), name="offer-search"),
    path("offers/bulk-update-status/", views.OfferBulkStatusView.as_view(), name="offer-bulk-status"),
    path("offers/statistics/", views.OfferStatisticsView.as_view(), name="offer-statistics"),
    path("offers/<washman_id:offer_id>/", views.OfferDetailView.as_view(), name="offer-detail"),
    path("offers/<washman_id:offer_id>/toggle-status/", views.OfferToggleStatusView.as_view(), name="offer-toggle-status"),
    # Vehicle stats
    path("vehicle-stats/", views.StatsListView.as_view(), name="stats-list"),
    path("vehicle-stats/record-visit/", views.RecordVisitView.as_view(), name="stats-record-visit"),
    path("vehicle-stats/eligible/", views.EligibleVehiclesView.as_view(), name="stats-eligible"),
    path("vehicle-stats/near-threshold/", views.NearThresholdView.as_view(), name="stats-near-threshold"),
    path("vehicle-stats/overview/", views.StatsOverviewView.as_view(), name="stats-overview"),
    path("vehicle-stats/top-vehicles/", views.TopVehiclesView.as_view(), name="stats-top-vehicles"),
    path("vehicle-stats/most-offers/", views.MostOffersView.as_view(), name="stats-most-offers"),
    path("vehicle-stats/vehicle/<washman_id:vehicle_id>/", views.VehicleStatsView.as_view(), name="stats-vehicle"),
    path(
        "vehicle-stats/vehicle/<washman_id:vehicle_id>/reset-visit-count/",
        views.ResetVisitCountView.as_view(),
        name="stats-reset",
    ),
    path(
        "vehicle-stats/vehicle/<washman_id:vehicle_id>/initialize/",
        views.InitializeStatsView.as_view(),
        name="stats-initialize",
    ),
    path("vehicle-stats/license-plate/<str:license_plate>/", views.PlateStatsView.as_view(), name="stats-plate"),
    # Vehicle offers
    path("vehicle-offers/", views.VehicleOfferListView.as_view(), name="vehicle-offer-list"),
    path(
        "vehicle-offers/expiring-soon/",
        views.VehicleOffersExpiringSoonView.as_view(),
        name="vehicle-offer-expiring-soon",
    ),
    path("vehicle-offers/check-active/", views.CheckActiveOffersView.as_view(), name="vehicle-offer-check-active"),
    path("vehicle-offers/bulk-expire/", views.BulkExpireView.as_view(), name="vehicle-offer-bulk-expire"),
    path(
        "vehicle-offers/statistics/",
        views.VehicleOfferStatisticsView.as_view(),
        name="vehicle-offer-statistics",
    ),
    path(
        "vehicle-offers/vehicle/<washman_id:vehicle_id>/active/",
        views.VehicleActiveOffersView.as_view(),
        name="vehicle-offer-vehicle-active",
    ),
    path(
        "vehicle-offers/license-plate/<str:license_plate>/",
        views.PlateVehicleOffersView.as_view(),
        name="vehicle-offer-plate",
    ),
    path("vehicle-offers/<washman_id:vehicle_offer_id>/", views.VehicleOfferDetailView.as_view(), name="vehicle-offer-detail"),
    path("vehicle-offers/<washman_id:vehicle_offer_id>/mark-used/", views.MarkUsedView.as_view(), name="vehicle-offer-mark-used"),
    path(
        "vehicle-offers/<washman_id:vehicle_offer_id>/mark-expired/",
        views.MarkExpiredView.as_view(),
        name="vehicle-offer-mark-expired",
    ),
]

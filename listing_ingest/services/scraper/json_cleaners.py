"""
Cleaners for structured-scraper JSON.

Structured scrapers return the portal's full page state. The cleaners drop
tracking, advertising and agent-contact noise so the extraction prompt only
sees listing facts. Both accept a single item, a list of items, or a
{"structuredData": [...]} wrapper.
"""
import copy
import re
from typing import Any, Callable, Optional

WRAPPER_KEY = "structuredData"


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def remove_empty_values(obj: Any) -> Any:
    """Recursively drop None, "", [] and {} values. Empty containers collapse to None."""
    if isinstance(obj, list):
        cleaned = [remove_empty_values(v) if isinstance(v, (dict, list)) else v for v in obj]
        cleaned = [v for v in cleaned if not _is_empty(v)]
        return cleaned or None
    if isinstance(obj, dict):
        cleaned = {}
        for key, value in obj.items():
            if _is_empty(value):
                continue
            if isinstance(value, (dict, list)):
                value = remove_empty_values(value)
                if _is_empty(value):
                    continue
            cleaned[key] = value
        return cleaned
    return obj


def _apply(data: Any, clean_item: Callable[[Any], Any]) -> Any:
    if not data:
        return data
    if isinstance(data, dict) and isinstance(data.get(WRAPPER_KEY), list):
        return {**data, WRAPPER_KEY: [clean_item(item) for item in data[WRAPPER_KEY]]}
    if isinstance(data, list):
        return [clean_item(item) for item in data]
    if isinstance(data, dict):
        return clean_item(data)
    return data


# --- realtor ---------------------------------------------------------------

REALTOR_REMOVED_FIELDS = frozenset({"url", "loadedUrl", "requestId", "requestQueueId"})


def _clean_realtor_item(item: Any) -> Any:
    if isinstance(item, list):
        cleaned = [_clean_realtor_item(v) if isinstance(v, (dict, list)) else v for v in item]
        return [v for v in cleaned if not _is_empty(v)]
    if not isinstance(item, dict):
        return item

    cleaned = {}
    for key, value in item.items():
        if key in REALTOR_REMOVED_FIELDS or _is_empty(value):
            continue
        cleaned[key] = _clean_realtor_item(value) if isinstance(value, (dict, list)) else value
    return cleaned


def clean_realtor_json(data: Any) -> Any:
    return _apply(data, _clean_realtor_item)


# --- zillow ----------------------------------------------------------------

ZILLOW_REMOVED_FIELDS = frozenset({
    "submitFlow", "collections", "rentalApplicationsAcceptedType", "foreclosureBalanceReportingDate",
    "housesForRentInZipcodeSearchUrl", "isCurrentSignedInAgentResponsible", "isCurrentSignedInUserVerifiedOwner",
    "apartmentsForRentInZipcodeSearchUrl", "hasApprovedThirdPartyVirtualTourUrl", "streetViewTileImageUrlMediumAddress",
    "streetViewTileImageUrlMediumLatLong", "isListingClaimedByCurrentSignedInUser", "streetViewMetadataUrlMediaWallAddress",
    "streetViewMetadataUrlMediaWallLatLong", "streetViewMetadataUrlMapLightboxAddress", "displayed_agents",
    "fallback_form", "hidden_fields", "hide_textarea",
    "request_trace", "tour_eligible", "authentication",
    "lender_details", "display_options", "ouid",
    "ssid", "zpid", "mlsid",
    "thumb", "hdpUrl", "brokerId",
    "building", "schools", "parcelId",
    "adTargets", "guid", "hood",
    "mlong", "yrblt", "listtp",
    "prange", "proptp", "aamgnrc1",
    "aamgnrc2", "sqftrange", "premieragent",
    "serviceversion", "boroughId", "bodyType",
    "electric", "parkName", "listingId",
    "tenantPays", "topography", "vegetation",
    "woodedArea", "builderName", "commonWalls",
    "contingency", "exclusions", "fireplaces",
    "inclusions", "entryLevel", "otherFacts",
    "otherParking", "poolFeatures", "storiesTotal",
    "entryLocation", "marketingType", "ownershipType",
    "petsMaxWeight", "structureType", "waterBodyName",
    "associationFee2", "associationName2", "associationPhone",
    "associationPhone2", "availabilityDate", "bathroomsPartial",
    "buildingFeatures", "elementarySchool", "exteriorFeatures",
    "interiorFeatures", "securityFeatures", "taxAssessedValue",
    "additionalFeeInfo", "communityFeatures", "developmentStatus",
    "fireplaceFeatures", "foundationDetails", "highSchoolDistrict",
    "mainLevelBedrooms", "mainLevelBathrooms", "waterfrontFeatures",
    "yearBuiltEffective", "bathroomsOneQuarter", "compensationBasedOn",
    "greenSustainability", "hasAttachedProperty", "numberOfUnitsVacant",
    "openParkingCapacity", "associationAmenities", "greenEnergyEfficient",
    "hasAdditionalParcels", "livingAreaRangeUnits", "middleOrJuniorSchool",
    "accessibilityFeatures", "bathroomsThreeQuarter", "constructionMaterials",
    "garageParkingCapacity", "greenEnergyGeneration", "greenIndoorAirQuality",
    "hasElectricOnProperty", "patioAndPorchFeatures", "aboveGradeFinishedArea",
    "belowGradeFinishedArea", "carportParkingCapacity", "coveredParkingCapacity",
    "cumulativeDaysOnMarket", "greenWaterConservation", "irrigationWaterRightsYN",
    "landLeaseExpirationDate", "elementarySchoolDistrict", "numberOfUnitsInCommunity",
    "specialListingConditions", "irrigationWaterRightsAcres", "additionalParcelsDescription",
    "middleOrJuniorSchoolDistrict", "greenBuildingVerificationType", "richMedia",
    "scrapedAt", "whatILove", "homeValues",
    "isFeatured", "livingArea", "lotPremium",
    "photoCount", "postingUrl", "taxHistory",
    "nearbyHomes", "attributionInfo", "listingMetadata",
    "priceHistory", "priceChange", "sellingSoon",
    "treatmentId", "percentile", "zipPlusFour",
    "communityUrl", "onsiteMessage", "placementId",
    "surfaceId", "flexibleLayout", "isAdsRestricted",
    "qualifiedTreatments", "pageViewCount", "tourViewCount",
    "hasPublicVideo", "hiResImageLink", "listingAccount",
    "listingSubType", "isPending", "isBankOwned",
    "isOpenHouse", "isComingSoon", "isForAuction",
    "isForeclosure", "foreclosingBank", "foreclosureDate",
    "listingProvider", "propertyTaxRate", "richMediaVideos",
    "tourEligibility", "tourAvailability", "isPropertyTourEligible",
    "datePostedString", "foreclosureTypes", "hdpTypeDimension",
    "isPremierBuilder", "listingsubtype", "isnewHome",
    "ispending", "isbankOwned", "isopenHouse",
    "iscomingSoon", "isforAuction", "isforeclosure",
    "mortgageZHLRates", "responsivePhotos", "subjectType",
    "originalPhotos", "postingContact", "virtualTourUrl",
    "ZoDsFsUpsellTop", "display", "placementName",
    "shouldDisplay", "decisionContext", "leadType",
    "leadTypes", "listPrice", "monthlyHoaFee",
    "hideZestimate", "isZillowOwned", "lastSoldPrice",
    "listingFeedID", "marketingName", "mortgageRates",
    "operatingSystem", "shouldDisplayUpsell", "hideMortgageAdDetailPage",
    "isGlobalHoldout", "selectedTreatment", "renderingProps",
    "overrideMargin0px", "hasBorderfalse", "actionLink",
    "actionText", "actionType", "actionButtonType",
    "secondaryActionLink", "secondaryActionText", "secondaryActionType",
    "secondaryActionButtonType", "skipDisplayReason", "isPlacementHoldout",
    "streetViewServiceUrl", "contactFormRenderData", "formidentifier",
    "brokerageproduct", "title", "listing",
    "oneadvisor", "directconnect", "toureligiblev2",
    "contactagenteligiblev2", "encodedzuid", "recentsales",
    "reviewcount", "businessname", "ratingaverage",
    "servicesoffered", "writereviewurl", "kellerwilliams",
    "infoboxvisible", "displayedlenders", "contactrecipients",
    "haspal", "badgetype", "firstname",
    "imagedata", "profileurl", "reviewsurl",
    "agentreason", "displayname", "hascaliberpal",
    "haswellsfargopal", "contactbuttontext", "regionphonenumber",
    "desktopphonenumber", "zhlprimaryctaeligible", "brokerageinfomustbeshown",
    "instantbookregion", "supportsunselectedleads", "variant",
    "pixelid", "opaquela", "pixelurl",
    "textarea", "textfields", "intl",
    "tourconfig", "agentmodule", "zpro",
    "phone", "prefix", "areacode",
})

ZILLOW_ROOM_REMOVED_FIELDS = frozenset({
    "area", "level", "features", "roomArea", "roomWidth", "dimensions",
    "roomLength", "description", "roomAreaSource", "roomDimensions",
    "roomDescription", "roomLengthWidthSource",
})

_MAP_CENTER_RE = re.compile(r"center=([^&]+)")
_MIXED_SOURCE_FORMATS = ("webp", "jpeg", "jpg")


def _static_map_coordinates(static_map: Any) -> dict:
    """Reduce a static map blob to the lat/lng in its first source URL."""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    sources = static_map.get("sources") if isinstance(static_map, dict) else None
    if isinstance(sources, list) and sources:
        first_url = sources[0].get("url") if isinstance(sources[0], dict) else None
        match = _MAP_CENTER_RE.search(first_url) if isinstance(first_url, str) else None
        if match:
            coords = match.group(1).replace("%2C", ",").split(",")
            if len(coords) >= 2:
                try:
                    latitude, longitude = float(coords[0]), float(coords[1])
                except ValueError:
                    latitude = longitude = None
    return {"latitude": latitude, "longitude": longitude}


def _widest_sources(mixed_sources: dict) -> dict:
    """Keep only the widest image per raster format."""
    processed = {}
    for fmt, images in mixed_sources.items():
        if fmt in _MIXED_SOURCE_FORMATS and isinstance(images, list) and images:
            widest = max(
                images,
                key=lambda img: (img.get("width") or 0) if isinstance(img, dict) else 0,
            )
            processed[fmt] = [widest]
        else:
            processed[fmt] = images
    return processed


def _clean_zillow_item(item: Any) -> Any:
    if not isinstance(item, dict):
        return item

    cleaned = {k: copy.deepcopy(v) for k, v in item.items() if k not in ZILLOW_REMOVED_FIELDS}

    vr_model = cleaned.get("vrModel")
    if isinstance(vr_model, dict):
        vr_model.pop("revisionId", None)
        vr_model.pop("vrModelGuid", None)

    reso_facts = cleaned.get("resoFacts")
    if isinstance(reso_facts, dict):
        reso_facts.pop("gas", None)
        reso_facts.pop("attic", None)
        rooms = reso_facts.get("rooms")
        if isinstance(rooms, list):
            reso_facts["rooms"] = [
                {k: v for k, v in room.items() if k not in ZILLOW_ROOM_REMOVED_FIELDS}
                if isinstance(room, dict) else room
                for room in rooms
            ]

    if cleaned.get("staticMap"):
        cleaned["staticMap"] = _static_map_coordinates(cleaned["staticMap"])

    if isinstance(cleaned.get("mixedSources"), dict):
        cleaned["mixedSources"] = _widest_sources(cleaned["mixedSources"])

    for key, value in list(cleaned.items()):
        if key in ("staticMap", "mixedSources"):
            continue
        if isinstance(value, list):
            cleaned[key] = [_clean_zillow_item(v) if isinstance(v, dict) else v for v in value]
        elif isinstance(value, dict):
            cleaned[key] = _clean_zillow_item(value)

    final = {}
    for key, value in cleaned.items():
        if _is_empty(value):
            continue
        if isinstance(value, list):
            value = [v for v in value if not _is_empty(v)]
        elif isinstance(value, dict):
            value = {k: v for k, v in value.items() if not _is_empty(v)}
        if not _is_empty(value):
            final[key] = value
    return final


def clean_zillow_json(data: Any) -> Any:
    return _apply(data, _clean_zillow_item)


JSON_CLEANERS: dict[str, Callable[[Any], Any]] = {
    "zillow": clean_zillow_json,
    "realtor": clean_realtor_json,
}


def get_json_cleaner(scraper_id: str) -> Optional[Callable[[Any], Any]]:
    return JSON_CLEANERS.get(scraper_id)

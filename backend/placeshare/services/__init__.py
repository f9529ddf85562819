# Services package init
"""
PlaceShare Backend: Services Layer
===================================

Service Inventory:
    - ConsistencyManager: every mutation spanning users, places and bookmarks
    - PlaceService: place queries
    - AccountService: signup, login, user listing, profile images
    - Geocoder (abstract) / MapboxGeocoder: address → (longitude, latitude)
    - FileService: upload validation, storage and cleanup
"""

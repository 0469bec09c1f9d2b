# Service layer for Bike Commander
# - bike_client: HTTP client for the bike backend
# - session:     connection lifecycle + inactivity timeout
# - gps_poller:  periodic GPS fetch with a failure cutoff
# - maps:        geocoding / bicycling directions
# - simulation:  scripted ride along a planned route

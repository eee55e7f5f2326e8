# This file marks the routers package for API route modules.
# It exists so the movie and operational route groups are registered from clear import paths.

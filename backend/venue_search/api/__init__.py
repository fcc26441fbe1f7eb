from . import admin_endpoints, search_endpoints

__all__ = [
	"search_endpoints",
	"admin_endpoints",
]

from . import billing, dashboard, data_sync, settings

__all__ = [
	"billing",
	"dashboard",
	"data_sync",
	"settings",
]

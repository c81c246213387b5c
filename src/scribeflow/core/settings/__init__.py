from .settings import (
    APP_NAME,
    CLOUD_PROVIDERS,
    LIVE_BACKENDS,
    Settings,
    get_analytics_file,
    get_config_dir,
    get_data_dir,
    get_jobs_file,
    get_recordings_dir,
    get_settings,
    reload_settings,
)

__all__ = [
    "APP_NAME",
    "CLOUD_PROVIDERS",
    "LIVE_BACKENDS",
    "Settings",
    "get_analytics_file",
    "get_config_dir",
    "get_data_dir",
    "get_jobs_file",
    "get_recordings_dir",
    "get_settings",
    "reload_settings",
]

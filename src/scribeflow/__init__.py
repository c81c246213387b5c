__app_name__ = "ScribeFlow"
__version__ = "0.1.0"

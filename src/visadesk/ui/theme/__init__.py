from visadesk.ui.theme.loader import apply_app_theme, current_theme_mode, load_stylesheet, theme_mode_for

__all__ = [
    "apply_app_theme",
    "current_theme_mode",
    "load_stylesheet",
    "theme_mode_for",
]

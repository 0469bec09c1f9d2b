from __future__ import annotations

import logging
from typing import Literal, cast, get_args

from nicegui import app, ui

from bike_commander.state import ConnectionStatus

ThemeMode = Literal["light", "dark", "system"]

# Footer/status pill color per session status
STATUS_COLORS: dict[ConnectionStatus, str] = {
    ConnectionStatus.DISCONNECTED: "#9E9E9E",
    ConnectionStatus.CONNECTING: "#F2C037",
    ConnectionStatus.CONNECTED: "#21BA45",
    ConnectionStatus.SENDING: "#31CCEC",
    ConnectionStatus.ERROR: "#DB2828",
    ConnectionStatus.CONNECTION_FAILED: "#DB2828",
    ConnectionStatus.CONNECTION_ERROR: "#DB2828",
}


def status_color(label: str) -> str:
    """Color for a status label as stored in ``BikeState.status``."""
    for status, color in STATUS_COLORS.items():
        if status.value == label:
            return color
    return "#9E9E9E"


# Quasar brand colors shared by both modes
_SEMANTIC = {
    "accent": "#FF8F00",
    "positive": "#21BA45",
    "negative": "#DB2828",
    "info": "#31CCEC",
    "warning": "#F2C037",
}

_PALETTES: dict[str, dict[str, str]] = {
    "light": {
        "primary": "#43A047",
        "primary_hover": "#2E7D32",
        "background": "#F4F6F4",
        "surface": "#FFFFFF",
        "text": "#1B1F1B",
        "muted": "#7A857A",
    },
    "dark": {
        "primary": "#388E3C",
        "primary_hover": "#1B5E20",
        "background": "#121512",
        "surface": "#1E231E",
        "text": "#DDE3DD",
        "muted": "#8E998E",
    },
}

_STORAGE_KEY = "theme_mode"


def get_palette(mode: ThemeMode) -> dict[str, str]:
    """Palette tokens for ``mode``; "system" uses the light surfaces."""
    return {**_PALETTES.get(mode, _PALETTES["light"]), **_SEMANTIC}


def _inject_css_vars(p: dict[str, str]) -> None:
    css_vars = "\n".join(
        f"  --bike-{name.replace('_', '-')}: {value};" for name, value in p.items()
    )
    ui.add_css(
        ":root {\n" + css_vars + "\n}\n"
        "body, .q-page { background: var(--bike-background); color: var(--bike-text); }\n"
        ".q-header, .q-footer, .q-card {\n"
        "  background: var(--bike-surface);\n"
        "  color: var(--bike-text);\n"
        "}\n"
        ".q-btn.bg-primary:hover { background: var(--bike-primary-hover) !important; }\n"
    )


def apply_theme(mode: ThemeMode) -> None:
    """Apply ``mode`` to the current page: Quasar colors, dark mode, CSS vars."""
    palette = get_palette(mode)
    ui.colors(
        primary=palette["primary"],
        secondary=palette["primary_hover"],
        **_SEMANTIC,
    )
    dark = ui.dark_mode()
    if mode == "dark":
        dark.enable()
    elif mode == "light":
        dark.disable()
    else:
        # Follow the browser preference
        dark.auto()
    _inject_css_vars(palette)
    logging.debug("Applied %s theme", mode)


def set_theme(mode: ThemeMode) -> ThemeMode:
    """Persist ``mode`` for all clients and apply it to this page."""
    app.storage.general[_STORAGE_KEY] = mode
    apply_theme(mode)
    return mode


def get_theme() -> ThemeMode:
    mode = app.storage.general.get(_STORAGE_KEY, "system")
    if mode in get_args(ThemeMode):
        return cast("ThemeMode", mode)
    return "system"


def inject_layout_css() -> None:
    """Layout CSS for the control pad, status readouts and map panes."""
    ui.add_css(
        """
/* Control pad: forward on top, left/stop/right, backward below */
.control-pad {
  display: grid;
  grid-template-columns: repeat(3, minmax(96px, 140px));
  grid-template-areas:
    ".     fwd   ."
    "left  stop  right"
    ".     back  .";
  gap: 10px;
  justify-content: center;
}
.control-pad .pad-forward { grid-area: fwd; }
.control-pad .pad-left { grid-area: left; }
.control-pad .pad-stop { grid-area: stop; }
.control-pad .pad-right { grid-area: right; }
.control-pad .pad-backward { grid-area: back; }

/* Status pill */
.status-pill {
  display: inline-block;
  padding: 2px 10px;
  border-radius: 999px;
  color: #fff;
  font-weight: 500;
}

/* Maps */
.map-pane {
  width: 100%;
  height: 600px;
  border-radius: 8px;
}
.route-info {
  position: absolute;
  bottom: 16px;
  left: 16px;
  z-index: 1000;
  min-width: 220px;
}
.error-banner {
  color: var(--q-negative);
  font-weight: 500;
}

/* Mobile: stack search rows, shorter map */
@media (max-width: 600px) {
  .search-row { flex-direction: column; align-items: stretch !important; }
  .map-pane { height: 420px; }
  .desktop-only { display: none; }
}
"""
    )

"""aur-trust - Track trusted AUR packages and detect when they change."""

__version__ = "0.1.0"

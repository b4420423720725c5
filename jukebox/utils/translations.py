"""
Jukebox guidance texts
User-facing messages surfaced by the player when a command cannot run.
German for de, everything else English.
"""

from typing import Any, Dict

TRANSLATIONS: Dict[str, Dict[str, str]] = {
    'de': {
        'no_device': 'Kein Wiedergabegerät gefunden. Öffne die Spotify-App auf einem Gerät, starte kurz die Wiedergabe und versuche es erneut.',
        'device_activation_failed': 'Das Gerät konnte nicht aktiviert werden. Öffne die Spotify-App, starte die Wiedergabe und versuche es erneut.',
        'no_active_device': 'Kein aktives Gerät. Starte die Wiedergabe in der Spotify-App und versuche es erneut.',
        'premium_required': 'Die Wiedergabesteuerung erfordert Spotify Premium. Die Steuerung bleibt deaktiviert, bis ein Gerät erneut geprüft wurde.',
        'nothing_to_play': 'Es ist kein Titel zum Abspielen ausgewählt.',
        'nothing_playing': 'Es wird gerade nichts abgespielt.',
        'sign_in_required': 'Deine Sitzung ist abgelaufen. Bitte melde dich erneut an.',
        'controls_disabled': 'Die Wiedergabesteuerung ist deaktiviert. Prüfe zuerst deine Geräte.',
        'request_failed': 'Die Anfrage ist fehlgeschlagen ({detail}). Bitte versuche es erneut.',
    },
    'en': {
        'no_device': 'No playback device found. Open the Spotify app on a device, start playback briefly and try again.',
        'device_activation_failed': 'The device could not be activated. Open the Spotify app, start playback and try again.',
        'no_active_device': 'No active device. Start playback in the Spotify app and try again.',
        'premium_required': 'Playback control requires Spotify Premium. Controls stay disabled until a device check succeeds again.',
        'nothing_to_play': 'There is no track selected to play.',
        'nothing_playing': 'Nothing is playing right now.',
        'sign_in_required': 'Your session has expired. Please sign in again.',
        'controls_disabled': 'Playback controls are disabled. Check your devices first.',
        'request_failed': 'The request failed ({detail}). Please try again.',
    },
}


def t(key: str, lang: str = 'en', **kwargs: Any) -> str:
    """Translation function with placeholder support.

    Args:
        key: Translation key to lookup
        lang: Language code ('de' or 'en')
        **kwargs: Placeholder values for string formatting

    Returns:
        str: Translated and formatted string
    """
    # Fallback chain: lang -> en -> key
    translation = TRANSLATIONS.get(lang, {}).get(key, TRANSLATIONS['en'].get(key, key))

    if kwargs:
        try:
            return translation.format(**kwargs)
        except (KeyError, ValueError, TypeError):
            return translation

    return translation


def get_translations(lang: str = 'en') -> Dict[str, str]:
    """Returns all translations for a language."""
    return TRANSLATIONS.get(lang, TRANSLATIONS['en'])

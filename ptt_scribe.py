#!/usr/bin/env python3
"""
pttscribe - Push-to-Talk Recording and Transcription

Usage:
    python ptt_scribe.py

Environment Variables:
    PTTSCRIBE_AUDIO_DEVICE    Audio input device index
    PTTSCRIBE_OUTPUT_MODE     Output mode: 'clipboard', 'paste', 'type' or 'none'
    PTTSCRIBE_LANGUAGE        Whisper language code (e.g., 'en', 'pl', or 'auto')
    PTTSCRIBE_MODEL           Model identifier inside the models directory
    PTTSCRIBE_MODELS_DIR      Directory holding converted Whisper models
    PTTSCRIBE_DATA_DIR        Directory for the in-progress recording
    PTTSCRIBE_SOUND_EFFECTS   Play start/stop/complete cues: '1' or '0'
    PTTSCRIBE_SOUND_VOLUME    Cue volume between 0 and 1
    PTTSCRIBE_VERBOSE         Enable verbose logging: '1' or 'true'
"""

from pttscribe.__main__ import main

if __name__ == "__main__":
    raise SystemExit(main())

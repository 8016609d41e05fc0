# AutoMix-Headless: autonomous two-channel DJ transition engine
# Package: automix

__version__ = "1.0.0-dev"
__author__ = "AutoMix Contributors"
__description__ = "Tempo/energy analysis, next-track scoring and timed crossfades"

# Module structure:
#   - automix.analyze   : Signal analysis (onset BPM, energy map, drop points)
#   - automix.generate  : Next-track scoring & transition style planning
#   - automix.live      : Tick-driven scheduler, timers, playback collaborators
#   - automix.config    : Configuration management
#   - automix.models    : Track / channel / settings / state records

"""Request schemas and URL checks for submitted programs."""

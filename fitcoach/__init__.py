"""FitCoach scheduling API."""

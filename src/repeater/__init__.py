"""repeater: content-addressed flashcard scheduling engine."""

"""Camera capture, face detection and phone detection."""

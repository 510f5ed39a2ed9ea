from __future__ import annotations


def summarize_exception(detail: str, *, max_len: int = 220) -> str:
    text = str(detail or "").strip()
    if not text:
        return "Unknown runtime error."
    lines = [ln.strip() for ln in text.splitlines() if ln.strip()]
    for ln in reversed(lines):
        if ln.startswith(("File ", "^", "Traceback ")):
            continue
        out = ln
        break
    else:
        out = lines[-1]
    if len(out) > max_len:
        return out[: max_len - 3].rstrip() + "..."
    return out


def hint_for_exception(summary: str) -> str:
    s = str(summary or "").lower()
    if "permission" in s or "access denied" in s:
        return "Allow microphone access for this terminal in the OS privacy settings, then retry."
    if "portaudio" in s or "no usable input device" in s:
        return "No audio input is available here. Connect a microphone or pick one with --list-devices / --device."
    if "no module named" in s or "is not installed" in s:
        return "A required package is missing in this virtualenv. Reinstall dependencies and retry."
    if "faster-whisper" in s or "whisper model" in s:
        return "Speech model failed to load. Check --model / --compute-type and that the model can be downloaded."
    if "config file not found" in s or "config must be a json object" in s:
        return "Configured JSON file is missing or invalid. Update the config path or restore the file."
    if "reference contour" in s:
        return "The --reference-pitch file must be a JSON list of {time, pitch, clarity} objects."
    if "microphone" in s:
        return "Microphone init failed. Check input device selection and app mic permissions."
    return "Check logs for full traceback."

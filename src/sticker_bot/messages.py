"""User-facing message texts."""

from sticker_bot.domain.generation import PackResult, ProgressCounts

HELP_TEXT = (
    "How it works:\n"
    "1. Send one clear photo of your face (JPEG or PNG).\n"
    "2. Wait while I put your face into every meme template.\n"
    "3. Open the link to add your new sticker pack.\n\n"
    "Tips: face the camera, use good light, keep one person in the frame.\n"
    "You can create one pack per day."
)
PHOTO_RECEIVED_TEXT = "Photo received! Checking it now..."
CREATING_PACK_TEXT = "Almost done, assembling your sticker pack..."
DAILY_LIMIT_TEXT = (
    "You have already created a sticker pack today. "
    "Come back tomorrow for another one!"
)
PROCESSING_ERROR_TEXT = (
    "Something went wrong while creating your stickers. Please try again later."
)
INVALID_PHOTO_TEXT = (
    "This photo does not work for stickers. "
    "Please send a JPEG or PNG at least 100x100 pixels with a clearly visible face."
)
NO_FACE_TEXT = (
    "I could not find a face in this photo. "
    "Please send a clear, well-lit photo of one person facing the camera."
)
IN_PROGRESS_TEXT = (
    "Your stickers are already being created. Please wait until they are ready."
)
SEND_PHOTO_TEXT = "Please send a photo to create stickers. Use /help for details."


def welcome_text(first_name: str | None) -> str:
    """Greeting for /start."""
    name = first_name or "there"
    return (
        f"Hi, {name}! I turn your photo into a pack of meme stickers.\n\n"
        "Send me a clear photo of your face to begin."
    )


def processing_started_text(template_count: int) -> str:
    return (
        f"Creating {template_count} stickers from your photo. "
        "This usually takes a few minutes."
    )


def progress_text(percent: int, counts: ProgressCounts) -> str:
    return (
        f"Progress: {percent}% ({counts.processed}/{counts.total} templates, "
        f"{counts.succeeded} ready)"
    )


def pack_ready_text(pack: PackResult) -> str:
    """Success message with the share link and the delivered count."""
    return (
        f"Your sticker pack is ready with {pack.actual_count} stickers!\n"
        f"{pack.share_url}"
    )


def insufficient_output_text(succeeded: int, required: int) -> str:
    return (
        f"Only {succeeded} stickers could be created, {required} are needed "
        "for a pack. Please try another photo."
    )

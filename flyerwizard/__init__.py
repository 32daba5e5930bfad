"""flyerwizard — shopping list migration wizard service."""

# Force SQLModel table registration at test discovery time
import northwind.models  # noqa: F401

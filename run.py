import os
from billiard_hall import create_app

app = create_app()

if __name__ == "__main__":
    app.run(
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8123")),
        debug=os.getenv("FLASK_DEBUG", "false").lower() == "true",
    )

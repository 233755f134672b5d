from app import create_app, db
from app.models import AppSettings, Match, Prediction, User, Week

app = create_app()


@app.shell_context_processor
def make_shell_context():
    return {
        "db": db,
        "AppSettings": AppSettings,
        "Match": Match,
        "Prediction": Prediction,
        "User": User,
        "Week": Week,
    }


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=True)

import os
from typing import Optional

from flask import Flask, abort, flash, redirect, render_template, request, send_file, url_for

from .models import Recipe, decode, decode_all, parse_steps
from .reconcile import RecipeListAdapter
from .storage import RecipeStore, StoreError

try:
    from .gcp_storage import FirestoreRecipeStore
except ImportError:  # pragma: no cover - allows running tests without optional deps
    FirestoreRecipeStore = None  # type: ignore[assignment,misc]

ALLOWED_IMAGE_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp"}


def create_app(store: Optional[RecipeStore] = None) -> Flask:
    """Create and configure the Flask application.

    Parameters
    ----------
    store:
        Optional recipe store. When ``None`` the application will use
        :class:`FirestoreRecipeStore` configured through environment variables.
    """

    app = Flask(__name__)
    app.config.setdefault("MAX_CONTENT_LENGTH", 16 * 1024 * 1024)
    app.secret_key = os.environ.get("FLASK_SECRET_KEY", "development-secret-change-me")

    if store is None:
        if FirestoreRecipeStore is None:
            raise RuntimeError(
                "google-cloud-firestore is not installed. Install the Google Cloud "
                "client libraries or pass an explicit store to create_app."
            )
        store = FirestoreRecipeStore.from_env()
    app.config["RECIPE_STORE"] = store
    app.config["RECIPE_LIST"] = RecipeListAdapter()

    @app.get("/")
    def index() -> str:
        store_backend: RecipeStore = app.config["RECIPE_STORE"]
        adapter: RecipeListAdapter = app.config["RECIPE_LIST"]

        try:
            documents = store_backend.fetch_all()
        except StoreError:
            app.logger.warning("Recipe list fetch failed", exc_info=True)
            flash("Could not load recipes.", "error")
        else:
            adapter.update(decode_all(documents))

        return render_template("index.html", recipes=adapter.items, title="Recipes")

    @app.get("/recipes/new")
    def new_recipe() -> str:
        return render_template("add_recipe.html", title="New recipe")

    @app.post("/recipes")
    def create_recipe() -> str:
        store_backend: RecipeStore = app.config["RECIPE_STORE"]

        title = request.form.get("title", "").strip()
        author_name = request.form.get("author_name", "").strip()
        steps = parse_steps(request.form.get("steps", ""))
        image = request.files.get("image")

        if not title:
            flash("Please provide a recipe title.", "error")
            return redirect(url_for("new_recipe"))

        if not author_name:
            flash("Please provide an author name.", "error")
            return redirect(url_for("new_recipe"))

        if image and image.filename and not _allowed_image(image.filename):
            flash("Unsupported image format. Allowed formats: PNG, JPG, JPEG, GIF, WEBP.", "error")
            return redirect(url_for("new_recipe"))

        recipe = Recipe.create(title=title, steps=steps, author_name=author_name)

        try:
            if image and image.filename:
                image_path = store_backend.upload_image(
                    recipe.id, image.filename, image.stream, image.mimetype
                )
                recipe = recipe.with_image(image_path)
            store_backend.save(recipe)
        except StoreError:
            app.logger.warning("Saving recipe %s failed", recipe.id, exc_info=True)
            flash("Failed to save recipe.", "error")
            return redirect(url_for("new_recipe"))

        flash(f"Recipe '{title}' saved.", "success")
        return redirect(url_for("recipe_detail", recipe_id=recipe.id, name=recipe.title))

    @app.get("/recipes/<recipe_id>")
    def recipe_detail(recipe_id: str) -> str:
        store_backend: RecipeStore = app.config["RECIPE_STORE"]
        recipe: Recipe | None = None

        try:
            document = store_backend.fetch_one(recipe_id)
        except StoreError:
            app.logger.warning("Recipe %s fetch failed", recipe_id, exc_info=True)
            flash("Could not load the recipe.", "error")
        else:
            if document is not None:
                recipe = decode(document.id, document.data)

        page_title = recipe.title if recipe else request.args.get("name", "")
        return render_template("recipe_detail.html", recipe=recipe, title=page_title)

    @app.get("/images/<path:image_path>")
    def recipe_image(image_path: str):
        store_backend: RecipeStore = app.config["RECIPE_STORE"]

        try:
            image = store_backend.resolve_image(image_path)
        except StoreError:
            app.logger.warning("Image %s fetch failed", image_path, exc_info=True)
            image = None

        if image is None:
            abort(404)
        return send_file(image.stream, mimetype=image.content_type or "application/octet-stream")

    return app


def _allowed_image(filename: str) -> bool:
    if not filename or "." not in filename:
        return False
    ext = filename.rsplit(".", 1)[1].lower()
    return ext in ALLOWED_IMAGE_EXTENSIONS


__all__ = ["create_app", "Recipe"]

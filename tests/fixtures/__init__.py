"""Test fixtures: sample models and schema DDL."""

from __future__ import annotations

from pathlib import Path

from brickorm.model import Model
from brickorm.pivot import Pivot
from brickorm.query.scope import Scope
from brickorm.relations import MorphTypeMap

_FIXTURES_DIR = Path(__file__).parent


def load_ddl() -> str:
    """Return the sample SQLite DDL string."""
    return (_FIXTURES_DIR / "ddl_sqlite.sql").read_text()


class PublishedScope(Scope):
    def apply(self, builder, model):
        builder.where(f"{model.table}.published", True)


class RoleUser(Pivot):
    columns = ("granted_at", "is_admin")


class Country(Model):
    table = "countries"

    def users(self):
        return self.has_many(User)

    def posts(self):
        return self.has_many_through(Post, User)


class User(Model):
    table = "users"

    def posts(self):
        return self.has_many(Post)

    def profile(self):
        return self.has_one(Profile)

    def country(self):
        return self.belongs_to(Country)

    def published_posts(self):
        return self.has_many(PublishedPost)

    def roles(self):
        return self.belongs_to_many(Role, "role_user")

    def roles_with_pivot(self):
        return self.roles().using(RoleUser)

    def comments(self):
        return self.morph_many(Comment, "commentable")

    def latest_comment(self):
        return self.morph_one(Comment, "commentable")

    def greeting(self):
        return f"hello {self.get_attribute('name')}"


class Profile(Model):
    table = "profiles"

    def user(self):
        return self.belongs_to(User)


class Post(Model):
    table = "posts"

    def author(self):
        return self.belongs_to(User, "user_id")

    def comments(self):
        return self.morph_many(Comment, "commentable")

    def tags(self):
        return self.morph_to_many(Tag, "taggable")


class PublishedPost(Post):
    global_scopes = (PublishedScope(),)


class Video(Model):
    table = "videos"

    def comments(self):
        return self.morph_many(Comment, "commentable")

    def tags(self):
        return self.morph_to_many(Tag, "taggable")


class Role(Model):
    table = "roles"

    def users(self):
        return self.belongs_to_many(User, "role_user")


class Tag(Model):
    table = "tags"


COMMENTABLES = MorphTypeMap({"posts": Post, "videos": Video})


class Comment(Model):
    table = "comments"

    def commentable(self):
        return self.morph_to("commentable", COMMENTABLES)

from pydantic import BaseModel, ConfigDict, Field


# --- Facets ---

class ArticleFacets(BaseModel):
    """Filter + pagination descriptor applied to article listings."""

    tag: str | None = None
    author: str | None = None
    favorited: str | None = None
    limit: int = Field(20, ge=1)
    offset: int = Field(0, ge=0)


# --- User ---

class UserCreate(BaseModel):
    username: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1)


class UserLogin(BaseModel):
    email: str
    password: str


class UserUpdate(BaseModel):
    username: str | None = Field(None, min_length=1, max_length=100)
    email: str | None = Field(None, min_length=3, max_length=255)
    password: str | None = Field(None, min_length=1)
    bio: str | None = None
    image: str | None = None


# Request bodies are wrapped the RealWorld way: {"user": {...}}.
class UserCreateRequest(BaseModel):
    user: UserCreate


class UserLoginRequest(BaseModel):
    user: UserLogin


class UserUpdateRequest(BaseModel):
    user: UserUpdate


class UserResponse(BaseModel):
    username: str
    email: str
    bio: str | None = None
    image: str | None = None
    token: str


class UserEnvelope(BaseModel):
    user: UserResponse


# --- Profile ---

class ProfileResponse(BaseModel):
    username: str
    bio: str | None = None
    image: str | None = None
    following: bool = False
    model_config = ConfigDict(from_attributes=True)


class ProfileEnvelope(BaseModel):
    profile: ProfileResponse


# --- Article ---

class ArticleCreate(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    description: str = Field("", max_length=500)
    body: str
    tag_list: list[str] = Field(default_factory=list, alias="tagList")
    model_config = ConfigDict(populate_by_name=True)


class ArticleUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=300)
    description: str | None = Field(None, max_length=500)
    body: str | None = None
    tag_list: list[str] | None = Field(None, alias="tagList")
    model_config = ConfigDict(populate_by_name=True)


class ArticleCreateRequest(BaseModel):
    article: ArticleCreate


class ArticleUpdateRequest(BaseModel):
    article: ArticleUpdate


class ArticleResponse(BaseModel):
    slug: str
    title: str
    description: str
    body: str
    tagList: list[str] = []
    createdAt: str | None = None
    updatedAt: str | None = None
    favorited: bool = False
    favoritesCount: int = 0
    author: ProfileResponse


class ArticleEnvelope(BaseModel):
    article: ArticleResponse


class ArticleListResponse(BaseModel):
    articles: list[ArticleResponse]
    articlesCount: int


# --- Tags ---

class TagListResponse(BaseModel):
    tags: list[str]


# --- Metrics ---

class MetricsResponse(BaseModel):
    total_users: int
    total_articles: int
    total_tags: int
    total_favorites: int
    total_follows: int
    avg_favorites_per_article: float
